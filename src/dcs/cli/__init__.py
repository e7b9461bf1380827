"""dcs CLI — classify, commit and sync files across the global and local stores."""

from ._helpers import main  # noqa: F401

# Import command modules to register Click commands with the main group.
from . import _basic, _stage, _mirror  # noqa: F401
