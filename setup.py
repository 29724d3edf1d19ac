# Package installation script

from setuptools import setup, find_namespace_packages

setup(
    name="offering_gateway",
    version="0.1.0",
    description="Gateway exposing Web of Things interactions as marketplace Offerings",
    packages=find_namespace_packages(where="src", include=["offering_gateway*"]),
    package_dir={"": "src"},
    python_requires=">=3.9",
    entry_points={
        "console_scripts": [
            "offering_gateway=offering_gateway.__main__:main",
        ],
    },
    install_requires=[
        "fastapi",
        "hypercorn",
        "pyyaml",
        "aiohttp",
        "aiocoap",
        "aiosqlite",
        "pydantic>=2",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
        ],
    },
)
