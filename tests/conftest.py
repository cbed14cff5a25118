"""Shared fixtures: small markdown libraries built under tmp_path."""

from pathlib import Path

import logfire
import pytest
import pytest_asyncio

from promptlib.library import Library

logfire.configure(send_to_logfire=False, console=False)


PRD_GENERATOR = """---
title: PRD Generator
description: Turn a rough idea into a product requirements document
tags: [planning, product]
aliases: [prd]
---

# PRD Generator

> Turn a rough idea into a product requirements document

```
Write a PRD for [Feature Name].
```
"""

SECURITY_AUDIT = """---
title: Security Audit
tags:
  - security
---

# Security Audit

Review the code for injection and auth issues.
"""

ULTRATHINK = """# Ultrathink

> Deep analysis mode

Take your time and consider every angle.
"""

NEW_FEATURE_CHAIN = """---
title: New Feature
description: Ship a feature end to end
---

# New Feature Workflow

> Ship a feature end to end

## Overview

```
Plan -> Build -> Review
```

## Prerequisites

- A clear goal
- Access to the repo

---

## Step 1: Plan

**Prompt:**
```
Plan the [Feature Name] feature for {{project}}.
```

**Expected Output:**
- A plan
- A risk list

> **Decision Point:** Is the scope small enough?

## Step 2: Build

**Prompt:**
```
Implement the plan.
```

## Step 3: Review

**Prompt:**
```
Review the change.
```

## Tips

- Keep steps small
"""

BUG_FIX_CHAIN = """# Bug Fix

## Step 1: Reproduce

**Prompt:**
```
Reproduce the bug.
```

## Step 2: Fix

**Prompt:**
```
Fix the root cause.
```
"""


def write_file(root: Path, relative_path: str, text: str) -> Path:
    path = root / relative_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def library_root(tmp_path: Path) -> Path:
    root = tmp_path / "library"
    write_file(root, "prompts/planning/prd-generator.md", PRD_GENERATOR)
    write_file(root, "prompts/quality/security-audit.md", SECURITY_AUDIT)
    write_file(root, "snippets/modifiers/ultrathink.md", ULTRATHINK)
    write_file(root, "chains/new-feature.md", NEW_FEATURE_CHAIN)
    write_file(root, "chains/bug-fix.md", BUG_FIX_CHAIN)
    # Never indexed
    write_file(root, "prompts/README.md", "# Prompts\n")
    write_file(root, "prompts/_index.md", "# Index\n")
    write_file(root, "notes/outside.md", "# Outside\n")
    write_file(root, "prompts/.hidden/secret.md", "# Secret\n")
    write_file(root, "prompts/planning/notes.txt", "not markdown")
    return root


@pytest_asyncio.fixture
async def library(library_root: Path) -> Library:
    lib = Library(library_root)
    await lib.scan()
    return lib
