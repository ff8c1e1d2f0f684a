"""HTTP routers for servo-adjust."""
