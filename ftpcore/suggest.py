from typing import Iterable

# Verbs of RFC 959 plus the extensions this client speaks
COMMANDS = [
    "USER", "PASS", "ACCT", "CWD", "CDUP", "QUIT", "REIN", "PORT", "PASV",
    "TYPE", "STRU", "MODE", "RETR", "STOR", "STOU", "APPE", "ALLO", "RNFR",
    "RNTO", "ABOR", "DELE", "RMD", "MKD", "PWD", "LIST", "NLST", "SITE",
    "SYST", "STAT", "HELP", "NOOP", "SIZE", "CHMOD",
]


def _levenstein(s1: str, s2: str) -> int:
    previous = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, 1):
        current = [i]
        for j, c2 in enumerate(s2, 1):
            insert = current[j - 1] + 1
            deleted = previous[j] + 1
            change = previous[j - 1] + (c1 != c2)
            current.append(min(insert, deleted, change))
        previous = current
    return previous[-1]


def get_suggestion(cmd: str, candidates: Iterable[str] = COMMANDS, max_distance: int = 3) -> str:
    """Closest candidate to `cmd` (case-insensitive), or '' if none is close enough."""
    dis = float('inf')
    suggestion = ""
    for command in candidates:
        d = _levenstein(cmd.upper(), command.upper())
        if d < dis:
            dis = d
            suggestion = command
    return suggestion if dis <= max_distance else ""
