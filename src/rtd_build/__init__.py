"""rtd-build: batch VCS update and MSBuild orchestration for C# projects."""

__version__ = "1.0.0"
