"""Context assembly from memory."""

from .assembler import ContextAssembler, ContextBlock, fit_to_budget

__all__ = ["ContextAssembler", "ContextBlock", "fit_to_budget"]
