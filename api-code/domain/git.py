from __future__ import annotations

from enum import Enum


class GitProvider(str, Enum):
    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"
    CUSTOM = "custom"


class Framework(str, Enum):
    LARAVEL = "laravel"
    NODEJS = "nodejs"
    NUXT = "nuxt"
    NEXTJS = "nextjs"
    STATIC = "static"
    CUSTOM = "custom"

    @property
    def label(self) -> str:
        return FRAMEWORK_LABELS[self]


class DeploymentTrigger(str, Enum):
    MANUAL = "manual"
    WEBHOOK = "webhook"
    ROLLBACK = "rollback"


FRAMEWORK_LABELS: dict[Framework, str] = {
    Framework.LARAVEL: "Laravel",
    Framework.NODEJS: "Node.js",
    Framework.NUXT: "Nuxt.js",
    Framework.NEXTJS: "Next.js",
    Framework.STATIC: "Static Site",
    Framework.CUSTOM: "Custom",
}

_PM2_RESTART = (
    "pm2 restart ecosystem.config.js --env production"
    " || pm2 start ecosystem.config.js --env production"
)

DEFAULT_DEPLOY_SCRIPTS: dict[Framework, tuple[str, ...]] = {
    Framework.LARAVEL: (
        "composer install --no-dev --optimize-autoloader",
        "php artisan migrate --force",
        "php artisan config:cache",
        "php artisan route:cache",
        "php artisan view:cache",
        "npm ci",
        "npm run build",
    ),
    Framework.NODEJS: ("npm ci", "npm run build", _PM2_RESTART),
    Framework.NUXT: ("npm ci", "npm run build", _PM2_RESTART),
    Framework.NEXTJS: ("npm ci", "npm run build", _PM2_RESTART),
    Framework.STATIC: ("npm ci", "npm run build"),
}

CUSTOM_SCRIPT_PLACEHOLDER = "# Add your custom deploy commands here"


def default_deploy_script(framework: Framework | str) -> str:
    """Return the release script used when a link is connected without one."""
    try:
        resolved = Framework(framework)
    except ValueError:
        return CUSTOM_SCRIPT_PLACEHOLDER
    lines = DEFAULT_DEPLOY_SCRIPTS.get(resolved)
    if not lines:
        return CUSTOM_SCRIPT_PLACEHOLDER
    return "\n".join(lines)
