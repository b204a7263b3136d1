"""
Console logging and process helpers shared by every stage of a release build.
"""

import os
import shlex
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Union

# ============================================================================
# LOGGING
# ============================================================================

class Color:
    """ANSI color codes"""
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    BOLD = '\033[1m'
    RESET = '\033[0m'

def log_info(msg: str):
    print(f"{Color.BLUE}[INFO]{Color.RESET} {msg}")

def log_success(msg: str):
    print(f"{Color.GREEN}[SUCCESS]{Color.RESET} {msg}")

def log_warning(msg: str):
    print(f"{Color.YELLOW}[WARNING]{Color.RESET} {msg}")

def log_error(msg: str):
    print(f"{Color.RED}[ERROR]{Color.RESET} {msg}")

def log_step(step: str, msg: str):
    print(f"\n{Color.CYAN}[{step}]{Color.RESET} {Color.BOLD}{msg}{Color.RESET}")

# ============================================================================
# PROCESSES
# ============================================================================

def format_command(cmd: List[str]) -> str:
    return ' '.join(shlex.quote(str(arg)) for arg in cmd)

def run_command(cmd: List[Union[str, Path]], cwd: Optional[Path] = None,
                env: Optional[Dict[str, str]] = None, capture: bool = False,
                check: bool = True, verbose: bool = False) -> subprocess.CompletedProcess:
    """
    Run an external command.

    Output is streamed to the console unless ``capture`` is set. With
    ``check`` a non-zero exit raises ``CalledProcessError`` carrying the
    original return code.
    """
    args = [str(arg) for arg in cmd]

    if verbose:
        log_info(f"Running: {format_command(args)}")
        if cwd:
            log_info(f"  in: {cwd}")

    current_env = os.environ.copy()
    if env:
        current_env.update(env)

    try:
        result = subprocess.run(
            args, cwd=cwd, env=current_env,
            capture_output=capture, text=True, encoding='utf-8',
            errors='replace'
        )
    except FileNotFoundError as e:
        raise RuntimeError(f"Command not found: {args[0]}") from e

    if check and result.returncode != 0:
        raise subprocess.CalledProcessError(result.returncode, args,
                                            result.stdout, result.stderr)

    return result

def human_size(num_bytes: int) -> str:
    """Format a byte count the way ``du -h`` does"""
    if num_bytes < 1024:
        return f"{num_bytes}B"
    size = num_bytes / 1024
    for unit in ("K", "M"):
        if size < 1024:
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}G"
