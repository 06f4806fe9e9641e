from setuptools import setup, find_packages

setup(
    name="tailor-ops",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*", "scripts"]),
    install_requires=[
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "httpx>=0.24",
        "python-dotenv>=1.0",
        "supabase>=2.0",
        "fastapi>=0.100",
        "uvicorn>=0.20",
        "websockets>=11.0",
        "python-multipart>=0.0.13",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    python_requires=">=3.8",
)
