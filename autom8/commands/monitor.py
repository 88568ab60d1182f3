"""
autom8 monitor - Dashboard over every session of the project.

Read-only view of state.json and live.json; the only thing it writes is a
pause request, which the engine picks up at its next state boundary.
"""

from pathlib import Path

from rich.markup import escape
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, VerticalScroll
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.widgets import Footer, Header, Static

from autom8.commands.common import resolve_project, short_date
from autom8.lib.constants import HEARTBEAT_STALE_THRESHOLD_SECS
from autom8.lib.errors import Autom8Error
from autom8.runner.sessions import SessionStatus, list_sessions_with_status
from autom8.runner.state import LiveState
from autom8.runner.store import StateManager
from autom8.spec import Spec

POLL_INTERVAL_SECONDS = 1.0


class PauseScreen(ModalScreen[bool]):
    """Asks before sending a pause request to a running session."""

    BINDINGS = [
        Binding("y", "answer(True)", "Pause"),
        Binding("n", "answer(False)", "Keep running"),
        Binding("escape", "answer(False)", "Cancel"),
    ]

    def __init__(self, session_id: str) -> None:
        super().__init__()
        self.session_id = session_id

    def compose(self) -> ComposeResult:
        yield Container(
            Static(f"Pause session [bold]{self.session_id}[/bold] after its current step?"),
            Static("[dim]\\[y] pause  \\[n] keep running[/dim]"),
            id="pause-dialog",
        )

    def action_answer(self, pause: bool) -> None:
        self.dismiss(pause)


def render_sessions(sessions: list[SessionStatus], selected: int) -> str:
    """Markup for the session list with the selected one highlighted."""
    if not sessions:
        return "[dim]No sessions[/dim]"
    lines = ["[bold]Sessions[/bold]", ""]
    for i, status in enumerate(sessions):
        state = status.state
        label = state.machine_state.label if state else "idle"
        pointer = ">" if i == selected else " "
        color = "cyan" if status.metadata.is_running else ("red" if status.is_stale else "")
        name = f"[{color}]{status.session_id}[/{color}]" if color else status.session_id
        current = " *" if status.is_current else ""
        lines.append(f"{pointer} {name}{current}")
        lines.append(f"    [dim]{escape(status.metadata.branch_name or '-')}[/dim]")
        lines.append(f"    {label}")
    return "\n".join(lines)


def render_run(status: SessionStatus | None, live: LiveState | None) -> str:
    """Markup for the selected session's run."""
    if status is None:
        return "[dim]Select a session[/dim]"

    meta = status.metadata
    lines = [
        f"[bold]{meta.session_id}[/bold]  {escape(meta.worktree_path)}",
        f"Branch: {escape(meta.branch_name or '-')}   Last active: {short_date(meta.last_active_at)}",
    ]
    state = status.state
    if state is None:
        lines.append("[dim]No run in this session[/dim]")
        return "\n".join(lines)

    lines.append(f"Run {state.run_id[:8]}: [cyan]{state.status.value}[/cyan] in {state.machine_state.label}")
    if state.current_story:
        lines.append(f"Story: {state.current_story}  (iteration {state.iteration})")
    try:
        done, total = Spec.load(Path(state.spec_json_path)).progress()
        lines.append(f"Progress: {done}/{total} stories")
    except Autom8Error:
        lines.append("[dim]Plan not available[/dim]")
    if state.error:
        lines.append(f"[red]{escape(state.error)}[/red]")

    if live is not None and live.last_heartbeat is not None:
        if live.is_alive(HEARTBEAT_STALE_THRESHOLD_SECS):
            lines.append("[green]heartbeat ok[/green]")
        else:
            lines.append("[yellow]heartbeat stale[/yellow]")
    return "\n".join(lines)


class SessionsWidget(Static):
    sessions: reactive[list] = reactive(list, always_update=True)
    selected: reactive[int] = reactive(0)

    def render(self) -> str:
        return render_sessions(self.sessions, self.selected)


class RunWidget(Static):
    status: reactive[SessionStatus | None] = reactive(None, always_update=True)
    live: reactive[LiveState | None] = reactive(None, always_update=True)

    def render(self) -> str:
        return render_run(self.status, self.live)


class MonitorApp(App):
    CSS = """
    #sessions-box {
        width: 34;
        border: solid green;
        padding: 0 1;
    }

    #right {
        layout: vertical;
    }

    #run-box {
        height: auto;
        border: solid blue;
        padding: 0 1;
    }

    #output-scroll {
        height: 1fr;
        border: solid $secondary;
    }

    #pause-dialog {
        width: auto;
        height: auto;
        padding: 1 2;
        background: $surface;
        border: thick $warning;
    }

    PauseScreen {
        align: center middle;
    }
    """

    BINDINGS = [
        Binding("j", "move(1)", "Next"),
        Binding("down", "move(1)", "Next", show=False),
        Binding("k", "move(-1)", "Previous"),
        Binding("up", "move(-1)", "Previous", show=False),
        Binding("p", "pause", "Pause"),
        Binding("q", "quit", "Quit"),
    ]

    def __init__(self, project: str, cwd: Path) -> None:
        super().__init__()
        self.project = project
        self.cwd = cwd
        self.statuses: list[SessionStatus] = []
        self.selected_id: str | None = None

    def compose(self) -> ComposeResult:
        yield Header()
        yield Horizontal(
            Container(SessionsWidget(id="sessions"), id="sessions-box"),
            Container(
                Container(RunWidget(id="run"), id="run-box"),
                VerticalScroll(Static("", id="output", markup=False), id="output-scroll"),
                id="right",
            ),
        )
        yield Footer()

    def on_mount(self) -> None:
        self.title = f"autom8 monitor: {self.project}"
        self.refresh_data()
        self.set_interval(POLL_INTERVAL_SECONDS, self.refresh_data)

    def _selected_index(self) -> int:
        for i, status in enumerate(self.statuses):
            if status.session_id == self.selected_id:
                return i
        return 0

    def refresh_data(self) -> None:
        self.statuses = list_sessions_with_status(self.project, self.cwd)
        index = self._selected_index()
        selected = self.statuses[index] if self.statuses else None
        self.selected_id = selected.session_id if selected else None

        sessions_widget = self.query_one("#sessions", SessionsWidget)
        sessions_widget.sessions = self.statuses
        sessions_widget.selected = index

        live = None
        if selected is not None:
            live = StateManager(self.project, selected.session_id).load_live()

        run_widget = self.query_one("#run", RunWidget)
        run_widget.status = selected
        run_widget.live = live

        output = self.query_one("#output", Static)
        output.update("".join(live.output_lines) if live else "")
        self.query_one("#output-scroll", VerticalScroll).scroll_end(animate=False)

        running = sum(1 for s in self.statuses if s.metadata.is_running and not s.is_stale)
        self.sub_title = f"{len(self.statuses)} sessions, {running} running"

    def action_move(self, step: int) -> None:
        if not self.statuses:
            return
        index = (self._selected_index() + step) % len(self.statuses)
        self.selected_id = self.statuses[index].session_id
        self.refresh_data()

    def action_pause(self) -> None:
        if self.selected_id is None:
            self.notify("No session selected", severity="warning")
            return
        session_id = self.selected_id

        def handle(confirmed: bool) -> None:
            if not confirmed:
                return
            if StateManager(self.project, session_id).request_pause():
                self.notify(f"Pause requested for {session_id}")
            else:
                self.notify(f"Session {session_id} isn't running", severity="warning")

        self.push_screen(PauseScreen(session_id), handle)


def cmd_monitor(args) -> int:
    cwd = Path.cwd()
    project = resolve_project(cwd)
    MonitorApp(project, cwd).run()
    return 0
