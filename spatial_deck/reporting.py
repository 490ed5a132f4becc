"""
Console reporting helpers shared by the pipeline stages.

Stages print progress to the console and mirror it into a log file
in their results directory.
"""

import sys
from contextlib import contextmanager
from pathlib import Path


class Tee:
    """Helper class to write to both console and file"""
    def __init__(self, *files):
        self.files = files

    def write(self, data):
        for f in self.files:
            f.write(data)
            f.flush()

    def flush(self):
        for f in self.files:
            f.flush()


def print_header(title: str, level: int = 1):
    """Print formatted section header"""
    if level == 1:
        print("\n" + "=" * 80)
        print(f"{title.upper()}")
        print("=" * 80)
    elif level == 2:
        print(f"\n[{title}]")
        print("-" * 80)
    else:
        print(f"\n--- {title} ---")


@contextmanager
def tee_output(log_file: Path):
    """Mirror stdout into ``log_file`` for the duration of the block."""
    with open(log_file, 'w', encoding='utf-8') as f:
        old_stdout = sys.stdout
        sys.stdout = Tee(old_stdout, f)
        try:
            yield log_file
        finally:
            sys.stdout = old_stdout
            print(f"\n✓ Log saved to: {log_file}")


def significance_stars(p_value: float) -> str:
    return "***" if p_value < 0.01 else "**" if p_value < 0.05 else "*" if p_value < 0.10 else ""
