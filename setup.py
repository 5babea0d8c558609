"""Setup script for the SlotBot meeting-slot booking server."""

from pathlib import Path

from setuptools import find_packages, setup

# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Read requirements; test tooling goes to the "dev" extra
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
dev_requirements = []

if requirements_file.exists():
    for line in requirements_file.read_text().strip().split("\n"):
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if "pytest" in line:
            dev_requirements.append(line)
        else:
            requirements.append(line)

setup(
    name="slotbot",
    version="0.1.0",
    description="Free meeting-slot calculator and booking server backed by a CalDAV calendar",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="SlotBot Team",
    # Package configuration
    packages=find_packages(exclude=["tests*", "docs*"]),
    include_package_data=True,
    # Dependencies
    install_requires=requirements,
    extras_require={
        "dev": dev_requirements
        + [
            "black>=23.0.0",
            "mypy>=1.0.0",
        ],
    },
    python_requires=">=3.11",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Web Environment",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business :: Scheduling",
        "Framework :: AsyncIO",
        "Framework :: aiohttp",
    ],
    keywords="calendar caldav booking scheduling availability rrule async",
    entry_points={
        "console_scripts": [
            "slotbot=slotbot_lite.__main__:main",
        ],
    },
    package_data={
        "slotbot_lite": [
            "static/*.html",
            "static/*.css",
            "static/*.js",
        ],
    },
    zip_safe=False,
)
