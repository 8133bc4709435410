# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""SQL statement screening for the database tools."""

import re


# -- Mutating keyword set for quick string matching --
MUTATING_KEYWORDS = {
    'INSERT',
    'UPDATE',
    'DELETE',
    'MERGE',
    'UPSERT',
    'TRUNCATE',
    'CREATE',
    'DROP',
    'ALTER',
    'RENAME',
    'GRANT',
    'REVOKE',
    'COPY',
    'VACUUM',
    'REINDEX',
    'CLUSTER',
    'COMMENT ON',
    'SECURITY LABEL',
    'REFRESH MATERIALIZED VIEW',
    'LOCK',
    'CALL',
    'DO',
}

MUTATING_PATTERN = re.compile(
    r'(?i)\b(' + '|'.join(re.escape(k).replace(r'\ ', r'\s+') for k in MUTATING_KEYWORDS) + r')\b'
)

# -- Regex for DDL statements --
DDL_REGEX = re.compile(
    r"""
    ^\s*(
        CREATE\s+(OR\s+REPLACE\s+)?(TABLE|VIEW|INDEX|TRIGGER|PROCEDURE|FUNCTION|SCHEMA|SEQUENCE|TYPE|EXTENSION|MATERIALIZED\s+VIEW)|
        DROP\s+(TABLE|VIEW|INDEX|TRIGGER|PROCEDURE|FUNCTION|SCHEMA|SEQUENCE|TYPE|EXTENSION|MATERIALIZED\s+VIEW)|
        ALTER\s+(TABLE|VIEW|INDEX|TRIGGER|PROCEDURE|FUNCTION|SCHEMA|SEQUENCE|TYPE|EXTENSION)|
        TRUNCATE
    )\b
    """,
    re.IGNORECASE | re.VERBOSE,
)

# -- Risky patterns: (regex, reason) --
SUSPICIOUS_PATTERNS = [
    (re.compile(r'--'), 'SQL line comment'),
    (re.compile(r'/\*'), 'SQL block comment'),
    (re.compile(r"(?i)\bor\b\s+'?\d+'?\s*=\s*'?\d+'?"), 'tautology (e.g. OR 1=1)'),
    (re.compile(r"(?i)\bor\b\s+'[^']*'\s*=\s*'[^']*'"), "tautology (e.g. OR 'a'='a')"),
    (re.compile(r'(?i)\bunion\b\s+(all\s+)?select\b'), 'UNION SELECT'),
    (re.compile(r'(?i)\bpg_sleep\s*\('), 'time-based function pg_sleep'),
    (re.compile(r'(?i)\b(pg_read_file|pg_read_binary_file|pg_ls_dir|lo_import|lo_export)\s*\('), 'server file access function'),
    (re.compile(r'(?i)\bdblink\w*\s*\('), 'dblink remote execution'),
]

_STRING_LITERAL = re.compile(r"'(?:[^']|'')*'")
_LINE_COMMENT = re.compile(r'--[^\n]*')
_BLOCK_COMMENT = re.compile(r'/\*.*?\*/', re.DOTALL)


def _strip_comments(sql: str) -> str:
    return _LINE_COMMENT.sub(' ', _BLOCK_COMMENT.sub(' ', sql))


def detect_mutating_keywords(sql: str) -> list[str]:
    """Return a list of mutating keywords found in the SQL (excluding comments and string literals)."""
    matched = []
    code = _STRING_LITERAL.sub("''", _strip_comments(sql))

    if DDL_REGEX.search(code):
        matched.append('DDL')

    keyword_matches = MUTATING_PATTERN.findall(code)
    if keyword_matches:
        # Deduplicate and normalize casing and inner whitespace
        matched.extend(sorted({' '.join(k.upper().split()) for k in keyword_matches}))

    return matched


def check_sql_injection_risk(sql: str) -> list[dict]:
    """Return a list of issues describing risky patterns in the SQL; empty when none found."""
    issues = []

    for pattern, reason in SUSPICIOUS_PATTERNS:
        if pattern.search(sql):
            issues.append({'type': 'sql', 'message': f'Suspicious pattern in query: {reason}', 'severity': 'high'})

    # more than one statement: a ';' followed by anything other than whitespace
    stripped = _STRING_LITERAL.sub("''", sql).strip()
    if ';' in stripped.rstrip(';'):
        issues.append({'type': 'sql', 'message': 'Multiple statements are not allowed', 'severity': 'high'})

    return issues
