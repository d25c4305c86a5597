"""Configuration — hostctl.yml loading."""
