"""HTTP-facing glue: FastAPI dependencies shared by the v1 routes."""
