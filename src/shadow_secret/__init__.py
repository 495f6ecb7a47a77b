"""
Shadow Secret - temporary secret injection into configuration files

Secrets are substituted into existing JSON, YAML and key=value files for the
lifetime of a process, and every touched file is restored to its original
content when the process ends.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
