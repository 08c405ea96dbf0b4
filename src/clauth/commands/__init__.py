"""Built-in CLI sub-command groups (``profile``, ``auth``)."""
