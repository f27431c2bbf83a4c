"""Decision engine and its rule table."""
