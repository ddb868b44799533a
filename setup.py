from setuptools import setup, find_namespace_packages

setup(
    name="dosetrack",
    version="0.1.0",
    packages=find_namespace_packages(include=["dosetrack", "dosetrack.*"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "uvicorn",
        "sqlalchemy>=2.0",
        "alembic",
        "psycopg2-binary",
        "python-dotenv",
        "pydantic>=2",
        "pydantic-settings",
        "celery",
        "firebase-admin",
        "prometheus-client",
        "prometheus-fastapi-instrumentator",
        "requests",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
)
