"""Excel rendering for tokenomics reports."""

from .report_renderer import TokenomicsReportRenderer

__all__ = ["TokenomicsReportRenderer"]
