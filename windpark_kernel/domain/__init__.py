"""Pure kernel domain objects: clock and tenant settings."""
