"""Agent engine, model selection and supporting services."""
