"""Proposal model: line items, pricing, validation, template types, lifecycle, service."""
