"""QuoteMaster — supplier quotation comparison and negotiation engine."""

__version__ = "0.4.0"
