"""CV Assistant - conversational resume editing with versioned projects."""

__version__ = "0.1.0"
