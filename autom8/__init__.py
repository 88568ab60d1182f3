"""autom8 - drives the claude CLI through a feature spec, story by story."""

__version__ = "0.4.0"
