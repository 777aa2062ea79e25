"""Thin Lambda handlers; ``main.lambda_handler`` routes HTTP API requests to them."""
