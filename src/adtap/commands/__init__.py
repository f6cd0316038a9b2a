"""adtap REPL/MCP commands.

Modules register themselves on `adtap.app.app` when imported.
"""
