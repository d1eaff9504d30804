"""Error kinds shared across the proposal engine.

Business-rule violations found by the validation engine are *data* (a list of
strings), not exceptions. The classes here cover the cases that do raise.
"""


class ProposalError(Exception):
    """Base for everything raised by proposaldesk."""


class ItemValidationError(ProposalError, ValueError):
    """Line-item mutation rejected (quantity, price or discount out of bounds)."""


class RenderError(ProposalError):
    """A document renderer could not build its output."""


class CollaboratorError(ProposalError):
    """Store or file-system failure, carrying the collaborator's message."""


class UnknownTemplateError(ProposalError, KeyError):
    """template_type is not one of the known variants."""

    def __str__(self):
        return f"Unknown template type: {self.args[0]!r}" if self.args else "Unknown template type"


class ImportFormatError(ProposalError):
    """Uploaded catalog file is not CSV or XLSX, or cannot be read."""
