"""Generated krems site configuration.

Builds the config.yaml document written when a site is seeded from the
example template. The website section is derived from the repository URL:
a GitHub repository owner/repo is served at https://owner.github.io/repo,
except for owner.github.io repositories which are served at the domain root.
"""

import re
from typing import Any, Dict, List, Optional, Tuple

import inflection
import titlecase as tc
import yaml

CONFIG_FILENAME = "config.yaml"

DEFAULT_MENU = [{"title": "Home", "path": "index.md"}]

# Last two path segments of scp-style or URL-style git remotes
REPOSITORY_PATTERN = re.compile(r'[:/]([^/:]+)/([^/]+?)(?:\.git)?/?$')


def parse_repository(url: str) -> Tuple[str, str]:
    """Split a git remote URL into (owner, repository name).

    Args:
        url: e.g. git@github.com:user/site.git or https://github.com/user/site

    Returns:
        Tuple of (owner, repo)

    Raises:
        ValueError: The URL has no owner/repo path
    """
    match = REPOSITORY_PATTERN.search(url.strip())
    if not match:
        raise ValueError(f"Cannot determine owner and repository from URL: {url}")
    return match.group(1), match.group(2)


def site_config_from_repository(
    repository_url: str,
    name: Optional[str] = None,
    menu: Optional[List[Dict[str, str]]] = None,
    alternative_css_dir: Optional[str] = None,
    alternative_js_dir: Optional[str] = None,
    favicon: Optional[str] = None,
) -> Dict[str, Any]:
    """Create the default site configuration for a repository.

    Args:
        repository_url: Remote URL of the user's site repository
        name: Site name (default: repository name in title case)
        menu: Ordered {title, path} entries (default: a single Home entry)
        alternative_css_dir: Custom CSS directory relative to the site
        alternative_js_dir: Custom JS directory relative to the site
        favicon: Custom favicon path relative to the site

    Returns:
        Dict with 'website' and 'menu' sections
    """
    owner, repo = parse_repository(repository_url)
    owner_slug = owner.lower()

    if repo.lower() == f"{owner_slug}.github.io":
        url = f"https://{owner_slug}.github.io"
        base_path = ""
    else:
        url = f"https://{owner_slug}.github.io/{repo}"
        base_path = f"/{repo}"

    website: Dict[str, Any] = {
        'url': url,
        'name': name or tc.titlecase(inflection.humanize(inflection.underscore(repo))),
        'basePath': base_path,
        'devPath': "/",
    }
    if alternative_css_dir:
        website['alternativeCSSDir'] = alternative_css_dir
    if alternative_js_dir:
        website['alternativeJSDir'] = alternative_js_dir
    if favicon:
        website['favicon'] = favicon

    return {
        'website': website,
        'menu': [dict(entry) for entry in (menu or DEFAULT_MENU)],
    }


def render_site_config(config: Dict[str, Any]) -> str:
    """Serialize a site configuration as YAML, keeping section order."""
    return yaml.safe_dump(
        config,
        default_flow_style=False,
        allow_unicode=True,
        sort_keys=False,
    )
