"""Revision sessions."""

from session.revisor import Revisor

__all__ = ["Revisor"]
