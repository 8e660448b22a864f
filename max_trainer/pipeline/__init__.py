"""Single-run training pipeline.

This package provides:
- Run configuration (TOML + environment variables)
- External command execution
- TensorFlow checkpoint patching
- Staging and archiving of trained model artifacts
- A runner that sequences all stages and maps failures to exit codes
"""
