# rfpcloud
# Procurement backend: RFP structuring, vendor outreach, proposal extraction,
# scoring and comparison.

__version__ = "0.2.0"
