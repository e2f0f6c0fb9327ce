from setuptools import setup


setup(
    name="roster-sync",
    version="0.3.0",
    description="Reconcile attendance and grades into hand-maintained master roster workbooks",
    packages=["roster_sync", "roster_sync.engine"],
    include_package_data=True,
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
        "requests",
    ],
    entry_points={
        "console_scripts": [
            "roster-sync=roster_sync.cli:main",
        ]
    },
)
