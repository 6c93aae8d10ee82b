"""
Analyst Brief Desk - sector-aware note taking for company ramps and earnings.

Paste report or transcript excerpts, get keyword signals, sector checklists
and suggested KPIs/questions, and export the whole thing as a brief.
"""

__version__ = "0.1.0"
