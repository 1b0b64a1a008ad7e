"""costwatch - cloud cost monitoring and alerting."""

__version__ = "0.1.0"
