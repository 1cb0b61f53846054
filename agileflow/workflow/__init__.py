"""Pure workflow rules: every function here works on records already in memory."""
