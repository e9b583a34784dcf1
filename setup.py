from setuptools import setup, find_packages

setup(
    name="votegate",
    version="0.1.0",
    packages=find_packages(include=["votegate", "votegate.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "starlette",
        "pydantic>=2.5",
        "pydantic-settings>=2.7",
        "python-jose[cryptography]>=3.3",
        "uvicorn",
    ],
    extras_require={
        "test": [
            "pytest>=8",
            "pytest-asyncio>=0.23",
            "httpx",
        ],
    },
)
