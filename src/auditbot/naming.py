"""Branch names and commit markers of generated changes."""

SECURITY_BRANCH_PREFIX = "remediation/"
UPDATE_BRANCH_PREFIX = "remediation-updates/"
PUBLISH_BRANCH_PREFIX = "remediation-publish/"
INSTALL_BRANCH_PREFIX = "remediation-install/"

BOT_BRANCH_PREFIXES = (
    SECURITY_BRANCH_PREFIX,
    UPDATE_BRANCH_PREFIX,
    PUBLISH_BRANCH_PREFIX,
    INSTALL_BRANCH_PREFIX,
)

GENERATED_MARKER = "[auditbot:generated]"


def is_bot_branch(branch: str) -> bool:
    """True for branches created by auditbot's own commits."""
    return branch.startswith(BOT_BRANCH_PREFIXES)


def security_branch(branch: str) -> str:
    return f"{SECURITY_BRANCH_PREFIX}{branch}"


def update_branch(branch: str) -> str:
    return f"{UPDATE_BRANCH_PREFIX}{branch}"


def _package_slug(package: str) -> str:
    return package.replace("@", "")


def publish_branch(branch: str, package: str) -> str:
    return f"{PUBLISH_BRANCH_PREFIX}{branch}/{_package_slug(package)}"


def install_branch(package: str) -> str:
    return f"{INSTALL_BRANCH_PREFIX}{_package_slug(package)}"


def commit_message(title: str, config_name: str) -> str:
    """Conventional commit message carrying machine-parsable provenance markers."""
    return f"{title}\n\n{GENERATED_MARKER}\n[auditbot-config:{config_name}]"
