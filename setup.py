#!/usr/bin/env python3
"""
Setup script for Burnmail.

Install with `pip install .` or, for development, `pip install -e '.[dev]'`.
"""

import sys

if sys.version_info < (3, 11):
    sys.exit("Error: Burnmail requires Python 3.11 or higher.")

try:
    from setuptools import find_namespace_packages, setup
except ImportError:
    sys.exit("Error: setuptools is required. Install it with: pip install setuptools")

# Read version from __version__.py for consistency
try:
    import re
    from pathlib import Path

    version_file = Path(__file__).parent / "src" / "burnmail" / "__version__.py"
    version_content = version_file.read_text(encoding="utf-8")
    version_match = re.search(r'^__version__\s*=\s*["\']([^"\']+)["\']', version_content, re.M)
    version = version_match.group(1) if version_match else "0.1.0"
except Exception:
    version = "0.1.0"

# Read long description from README if available
try:
    from pathlib import Path

    readme_path = Path(__file__).parent / "README.md"
    if readme_path.exists():
        long_description = readme_path.read_text(encoding="utf-8")
        long_description_content_type = "text/markdown"
    else:
        long_description = "Disposable mail.tm inbox in your terminal"
        long_description_content_type = "text/plain"
except Exception:
    long_description = "Disposable mail.tm inbox in your terminal"
    long_description_content_type = "text/plain"

# Core dependencies
install_requires = [
    "pydantic>=2.5.0",
    "pydantic-settings>=2.1.0",
    "requests>=2.31.0",
    "cryptography>=41.0.0",
    "keyring>=24.0.0",
    "beautifulsoup4>=4.12.0",
    "rich>=13.0.0",
    "windows-curses>=2.3.0; sys_platform == 'win32'",
]

# Development dependencies
extras_require = {
    "dev": [
        "pytest>=7.4.0",
        "pytest-asyncio>=0.21.0",
        "pytest-cov>=4.1.0",
        "black>=23.0.0",
        "flake8>=6.1.0",
        "mypy>=1.7.0",
    ],
}
extras_require["test"] = extras_require["dev"][:3]

setup(
    name="burnmail",
    version=version,
    description="Disposable mail.tm inbox in your terminal",
    long_description=long_description,
    long_description_content_type=long_description_content_type,
    author="Burnmail Contributors",
    license="MIT",
    python_requires=">=3.11",
    packages=find_namespace_packages(
        where="src", include=["burnmail*", "client*", "common*"]
    ),
    package_dir={"": "src"},
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={
        "console_scripts": [
            "burnmail=burnmail.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console :: Curses",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Communications :: Email",
    ],
    keywords=["email", "disposable", "temporary", "mail.tm", "tui", "cli"],
)
