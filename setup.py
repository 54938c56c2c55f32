from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="credit_risk_ensemble",
    version="1.0.0",
    author="Credit Risk Team",
    description="Ensemble de modelos de ML para predicción de riesgo crediticio en escala 0-1000",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    python_requires=">=3.8",
    install_requires=[
        # Librerías básicas de datos y computación
        "numpy>=1.21.0",
        "pandas>=1.3.0",

        # Machine Learning
        "scikit-learn>=1.0.0",

        # Visualización
        "matplotlib>=3.4.2",

        # Utilidades y herramientas
        "tqdm>=4.61.2",
        "joblib>=1.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=6.0.0",
            "pytest-cov>=2.0.0",
            "black>=21.0.0",
            "flake8>=3.8.0",
            "mypy>=0.800",
        ],
    },
    entry_points={
        "console_scripts": [
            "credit-train=pipelines.ensemble.ensemble_trainer:main",
        ],
    },
    include_package_data=True,
    package_data={
        "": ["*.json", "*.csv", "*.txt"],
    },
    zip_safe=False,
)
