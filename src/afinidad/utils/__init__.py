"""Utilidades compartidas."""

from afinidad.utils.coalescing import CoalescingTrigger

__all__ = ["CoalescingTrigger"]
