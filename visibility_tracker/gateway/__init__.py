"""AI Provider Gateway contract.

The concrete network call to each AI vendor lives outside this package;
the pipeline only depends on:
  - ProviderGateway protocol (analyze + probe)
  - GatewayResult / ProviderStats DTOs
  - bounded_call() for per-unit timeouts
"""
