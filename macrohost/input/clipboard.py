"""System clipboard through the platform's command-line tools.

  darwin   pbcopy / pbpaste
  linux    xclip -selection clipboard
  windows  powershell Get-Clipboard / Set-Clipboard

Text crosses the pipe as UTF-8 on every platform; on Windows the console
encodings are set to UTF-8 explicitly.
Errors (missing tool, non-zero exit, timeout) propagate to the caller.
"""

from __future__ import annotations

import logging
import subprocess
import sys

from macrohost.input.driver import ClipboardService

log = logging.getLogger(__name__)

_TIMEOUT_SEC = 5

_PS_UTF8 = (
    '$utf8 = New-Object System.Text.UTF8Encoding $false; '
    '[Console]::OutputEncoding = $utf8; [Console]::InputEncoding = $utf8; '
)


def _commands(platform: str) -> tuple[list[str], list[str]]:
    """(read command, write command) for the platform."""
    if platform == 'darwin':
        return ['pbpaste'], ['pbcopy']
    if platform.startswith('win'):
        return (
            ['powershell', '-NoProfile', '-Command',
             _PS_UTF8 + '[Console]::Out.Write((Get-Clipboard -Raw))'],
            ['powershell', '-NoProfile', '-Command',
             _PS_UTF8 + 'Set-Clipboard -Value ([Console]::In.ReadToEnd())'],
        )
    return (
        ['xclip', '-selection', 'clipboard', '-o'],
        ['xclip', '-selection', 'clipboard'],
    )


class SystemClipboard(ClipboardService):

    def __init__(self, platform: str | None = None) -> None:
        self._read_cmd, self._write_cmd = _commands(platform or sys.platform)

    def get_text(self) -> str:
        result = subprocess.run(
            self._read_cmd,
            capture_output=True,
            check=True,
            timeout=_TIMEOUT_SEC,
        )
        return result.stdout.decode('utf-8', errors='replace').removeprefix('\ufeff')

    def set_text(self, text: str) -> None:
        subprocess.run(
            self._write_cmd,
            input=text.encode('utf-8'),
            check=True,
            timeout=_TIMEOUT_SEC,
        )
        log.debug('Clipboard set (%d chars)', len(text))
