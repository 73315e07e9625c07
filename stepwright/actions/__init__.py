"""Step actions and the interpreter that dispatches them."""

from stepwright.actions.interpreter import ActionInterpreter

__all__ = ["ActionInterpreter"]
