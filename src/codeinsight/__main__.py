"""Entry point for running CodeInsight as a module.

Usage:
    python -m codeinsight [command] [options]

Example:
    python -m codeinsight ingest https://github.com/octocat/Hello-World
    python -m codeinsight serve --port 8000
"""

from codeinsight.cli import app

if __name__ == "__main__":
    app()
