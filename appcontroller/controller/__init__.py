"""Application controller bootstrap, run loop and entrypoint."""

from appcontroller.controller.bootstrap import Bootstrapper
from appcontroller.controller.options import ControllerOptions

__all__ = ["Bootstrapper", "ControllerOptions"]
