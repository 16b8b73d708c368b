from setuptools import setup, find_packages

setup(
    name="loadtrace",
    version="0.1.0",
    description="loadtrace - Tracing-instrumented HTTP client for load tests",
    author="loadtrace Team",
    packages=find_packages(exclude=["tests", "tests.*", "examples", "examples.*"]),
    install_requires=[
        "protobuf>=3.19.0",
        "requests>=2.28.0",
        "opentelemetry-api>=1.20.0,<1.22",
        "opentelemetry-sdk>=1.20.0,<1.22",
        "opentelemetry-exporter-otlp>=1.20.0,<1.22",
        "opentelemetry-proto>=1.20.0,<1.22",
        "opentelemetry-propagator-b3>=1.20.0,<1.22",
        "opentelemetry-propagator-jaeger>=1.20.0,<1.22",
        "opentelemetry-exporter-jaeger-thrift>=1.20.0,<1.22",
        "thrift>=0.16.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov",
            "black",
            "isort",
            "pylint",
        ],
    },
    python_requires=">=3.9",
)
