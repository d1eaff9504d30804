"""
Proposal Desk: proposal pricing and offer document generation

Packages:
    core/       Paths, configuration, errors, SQLite persistence
    proposals/  Line items, pricing, validation, template types, lifecycle
    forms/      Commercial offer + technical RFQ PDFs, HTML preview
    catalog/    Product catalog import and storage
    api/        Flask routes
"""

__version__ = "1.0.0"
