"""Longest Common Subsequence matching over block signatures.

The planner uses the LCS to pair buffer blocks with previously-synced blocks
by content: among equally good pairings it keeps the one that preserves the
longest run of stable order.
"""

from __future__ import annotations

from notionsync.models import BlockSignature


def lcs_match(
    old_sigs: list[BlockSignature],
    new_sigs: list[BlockSignature],
) -> list[tuple[int, int]]:
    """Return LCS matched ``(old_idx, new_idx)`` pairs, in order.

    Indices missing from the result on either side are unmatched.
    """
    m = len(old_sigs)
    n = len(new_sigs)

    if m == 0 or n == 0:
        return []

    # dp[i][j] is the LCS length of old_sigs[:i] and new_sigs[:j].
    dp: list[list[int]] = [[0] * (n + 1) for _ in range(m + 1)]

    for i in range(1, m + 1):
        for j in range(1, n + 1):
            if old_sigs[i - 1] == new_sigs[j - 1]:
                dp[i][j] = dp[i - 1][j - 1] + 1
            else:
                dp[i][j] = max(dp[i - 1][j], dp[i][j - 1])

    pairs: list[tuple[int, int]] = []
    i, j = m, n
    while i > 0 and j > 0:
        if old_sigs[i - 1] == new_sigs[j - 1]:
            pairs.append((i - 1, j - 1))
            i -= 1
            j -= 1
        elif dp[i - 1][j] >= dp[i][j - 1]:
            i -= 1
        else:
            j -= 1

    pairs.reverse()
    return pairs
