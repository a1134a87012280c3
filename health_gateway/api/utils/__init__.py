"""API utilities: response classes shared by routes and the error boundary."""
