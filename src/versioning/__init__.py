"""NuGet version and framework handling."""
