"""Setup script for the CalendarBot recurring-event editing engine."""

from pathlib import Path

from setuptools import find_packages, setup

# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

requirements = [
    "pydantic>=2.0",
    "python-dateutil>=2.8.2",
    "colorlog>=6.7.0",
]

test_requirements = [
    "pytest>=7.4",
    "pytest-asyncio>=0.23",
]

setup(
    name="calendarbot-editor",
    version="0.1.0",
    description="Recurring event expansion, scoped edits and debounced saving for CalendarBot",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="CalendarBot Team",
    author_email="support@calendarbot.local",
    url="https://github.com/calendarbot/calendarbot",
    # Package configuration
    packages=find_packages(exclude=["tests*", "docs*"]),
    include_package_data=True,
    # Dependencies
    install_requires=requirements,
    extras_require={
        "test": test_requirements,
        "dev": test_requirements
        + [
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.0.0",
        ],
    },
    # datetime.UTC is used throughout
    python_requires=">=3.11",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Operating System :: MacOS",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business :: Scheduling",
        "Framework :: AsyncIO",
    ],
    keywords="calendar rrule recurrence scheduling debounce async",
    entry_points={
        "console_scripts": [
            "calendarbot-editor=calendarbot_editor.__main__:main",
        ],
    },
    zip_safe=False,
    platforms=["linux", "macos"],
)
