"""
Infrastructure layer - external service integrations.

- storage: Protocol clients for the supported storage backends, plus the
  request signers they depend on.

These clients translate between backend wire formats and our domain models.
"""
