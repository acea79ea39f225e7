"""Small helpers shared across the storefront sync package."""
