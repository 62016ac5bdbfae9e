"""Call Flow Engine - Setup configuration."""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="callflow-engine",
    version="1.0.0",
    author="Builder Engine",
    author_email="support@builderengine.io",
    description="Flow definition, validation and versioning for voice bots",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Framework :: FastAPI",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Communications :: Telephony",
    ],
    python_requires=">=3.9",
    install_requires=[
        "fastapi>=0.104.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "sqlalchemy[asyncio]>=2.0.0",
        "structlog>=23.2.0",
        "typing_extensions>=4.8.0",
    ],
    extras_require={
        "postgres": [
            "asyncpg>=0.29.0",
        ],
        "sqlite": [
            "aiosqlite>=0.19.0",
        ],
        "server": [
            "uvicorn[standard]>=0.24.0",
        ],
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "httpx>=0.25.0",
            "aiosqlite>=0.19.0",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
