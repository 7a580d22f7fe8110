"""Exchange -- two players trading messages over pluggable channels."""

__version__ = "0.1.0"
