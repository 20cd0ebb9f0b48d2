"""HTTP transport: framework-neutral messages and the Starlette adapter."""
