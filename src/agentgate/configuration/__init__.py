"""Configuration access: the YAML application config and its typed views."""
