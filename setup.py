"""
Setup script for the Lifecycle Planner.
"""

from setuptools import find_packages, setup

with open("requirements.txt") as f:
    requirements = [line for line in f.read().splitlines() if line and not line.startswith("#")]

with open("README.md", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="lifecycle-planner",
    version="1.0.0",
    author="Lifecycle Planner Team",
    author_email="team@example.com",
    description="Identity lifecycle transition classifier and reversible provisioning plan synthesizer",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["lifecycle_planner", "lifecycle_planner.*"]),
    package_data={"lifecycle_planner.engine": ["lifecycle.yaml"]},
    include_package_data=True,
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Information Technology",
        "Intended Audience :: System Administrators",
        "Topic :: System :: Systems Administration",
        "Topic :: Security",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "pytest-mock>=3.10.0",
            "black>=23.0.0",
            "isort>=5.12.0",
            "flake8>=6.0.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "lifecyclectl=lifecycle_planner.cli.lifecyclectl:main",
        ],
    },
)
