"""SQLite persistence for coordinator and agent stores."""
