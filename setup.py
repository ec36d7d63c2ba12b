from setuptools import setup, find_packages

setup(
    name="lanspot",
    version="0.1.0",
    description="Presence discovery over UDP broadcast with a tagged binary codec",
    packages=find_packages(include=["lanspot", "lanspot.*"]),
    install_requires=[
        "pydantic>=2",
        "pydantic-settings",
        "structlog",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    python_requires=">=3.8",
)
