"""Proposal document output: PDF renderers and HTML preview.

Key exports (proposaldesk.forms.documents):
    render_document()        : (pdf bytes, filename) for any template type
    render_preview_document(): (html, filename) preview / print path
    select_renderer()        : template type → renderer
    document_filename()      : <number>-proposal.pdf / RFQ-<doc number>.pdf
"""
