"""Roster sources."""

from trivia_bots.roster.excel_loader import ExcelRosterLoader

__all__ = ["ExcelRosterLoader"]
