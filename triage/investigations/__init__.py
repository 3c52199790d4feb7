"""Investigation strategies and the ordered registry that matches them to alerts."""
