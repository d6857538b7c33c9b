"""Local storage backends."""
