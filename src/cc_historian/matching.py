"""Casing-aware term matching and query vocabularies."""

import re

# Specific technology names. When a query names one of these, content must too.
STRICT_CORE_TERMS = frozenset(
    {
        "webpack", "docker", "react", "vue", "angular", "node", "npm", "yarn",
        "typescript", "python", "rust", "go", "java", "kubernetes", "aws", "gcp",
        "azure", "postgres", "mysql", "redis", "mongodb", "graphql", "rest", "grpc",
        "oauth", "jwt", "git", "github", "gitlab", "jenkins", "nginx", "apache",
        "eslint", "prettier", "babel", "vite", "rollup", "esbuild", "jest", "mocha",
        "cypress", "playwright", "nextjs", "nuxt", "svelte", "tailwind", "sass",
        "less", "vitest", "pnpm", "turborepo", "prisma", "drizzle", "sequelize",
        "sqlite", "leveldb", "indexeddb",
    }
)

# Words common enough across domains that they never count as supporting terms
GENERIC_TERMS = frozenset(
    {
        # actions
        "config", "configuration", "setup", "install", "build", "deploy", "test",
        "run", "start", "create", "update", "fix", "add", "remove", "change",
        "optimize", "optimization", "improve", "use", "using", "with", "for", "the",
        "and", "make", "write", "read", "delete", "check",
        # testing
        "testing", "tests", "mocks", "mocking", "mock", "stubs", "stubbing", "specs",
        "coverage",
        # design
        "design", "designs", "designing", "responsive", "architecture", "pattern",
        "patterns",
        # performance
        "caching", "cache", "rendering", "render", "bundle", "bundling", "performance",
        # process
        "strategy", "strategies", "approach", "implementation", "solution",
        "solutions", "feature", "features", "system", "systems", "process",
        "processing", "handler", "handling", "manager", "management",
        # common nouns
        "files", "file", "folder", "directory", "path", "code", "data", "error",
        "errors", "function", "functions", "class", "classes", "method", "methods",
        "variable", "variables", "component", "components", "module", "modules",
        "package", "packages", "library", "libraries",
        # formatting
        "format", "formatting", "style", "styles", "layout", "display", "show",
        "hide", "visible", "rules", "rule", "options", "option", "settings",
        "setting", "params", "parameters",
        # generic technical
        "server", "client", "request", "response", "async", "await", "promise",
        "callback", "import", "export", "require", "include", "define", "declare",
        "return", "output", "input",
        # database
        "database", "schema", "schemas", "models", "model", "table", "tables",
        "query", "queries", "migration", "migrations", "index", "indexes", "field",
        "fields", "column", "columns",
        # infrastructure
        "deployment", "container", "containers", "service", "services", "cluster",
        "clusters", "instance", "instances", "environment", "environments",
        "manifest", "resource", "resources",
        # programming
        "interface", "interfaces", "types", "typing", "object", "objects", "array",
        "arrays", "string", "strings", "number", "numbers", "boolean", "value",
        "values", "property", "properties",
    }
)

STOP_WORDS = frozenset(
    {
        "the", "and", "for", "that", "this", "with", "from", "have", "has", "how",
        "what", "when", "where", "why", "can", "could", "would", "should", "want",
        "need", "help", "please", "just", "like", "some", "any", "all",
    }
)

_WORD_DELIMITERS = re.compile(r"[\s.,;:!?()\[\]{}'\"<>]+")
_NON_WORD = re.compile(r"[^\w-]")


def _is_normal_case(word: str) -> bool:
    return (
        word == word.lower()
        or word == word.upper()
        or word == word[0].upper() + word[1:].lower()
    )


def matches_term(content: str, term: str) -> bool:
    """Check whether ``term`` occurs in ``content`` as a normally-cased word.

    "react" matches "react", "React" and "REACT" but not "ReAct": internal
    capitalisation marks a different name that happens to share letters.
    """
    term_lower = term.lower()
    for word in _WORD_DELIMITERS.split(content):
        clean = _NON_WORD.sub("", word)
        if not clean or clean.lower() != term_lower:
            continue
        if _is_normal_case(clean):
            return True
    return False


def query_words(query: str) -> list[str]:
    """Lower-cased whitespace-split query words longer than two characters."""
    return [w for w in query.lower().split() if len(w) > 2]


def significant_words(words: list[str]) -> list[str]:
    """Words of four or more characters that are not stop words."""
    return [w for w in words if len(w) >= 4 and w not in STOP_WORDS]


def is_strict_core(word: str) -> bool:
    return word.lower() in STRICT_CORE_TERMS


def is_supporting(word: str) -> bool:
    return not is_strict_core(word) and word not in GENERIC_TERMS and len(word) >= 5
