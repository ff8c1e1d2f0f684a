"""Services for servo-adjust."""
