"""Survey intake server.

Validates uploaded survey responses against campaign definitions, including
prompts whose display depends on conditions over earlier answers.
"""

__version__ = "1.0.0"
