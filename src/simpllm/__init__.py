"""SimpLLM - cost-aware model routing for coding assistants.

Modules:
    - routing: catalog, classifier, policy engine and router
    - usage: session credit/token accounting and budget state
    - feedback: explicit ratings and implicit override records
    - handler: the two-pass request pipeline tying it all together
    - cli: typer command surface (chat, stats, budget, config)
"""

__version__ = "0.3.0"


class SimpLLMError(Exception):
    """Base class for all SimpLLM errors."""
