import os

import setuptools

setuptools.setup(
    name="slackbridge",
    version="0.1.0",
    license="COIL",
    description="A trio IRC bot that relays channels to Slack, mapping IRC nicknames to Slack users.",
    keywords="bot network async trio irc slack bridge",
    install_requires=open(os.path.join(os.path.dirname(__file__), "requirements.txt"))
    .read()
    .strip()
    .split("\n"),
    extras_require={"test": ["pytest", "pytest-trio"]},
    long_description=open(os.path.join(os.path.dirname(__file__), "README.md")).read(),
    long_description_content_type="text/markdown",
    packages=["slackbridge", "slackbridge.backends"],
    entry_points={"console_scripts": ["slackbridge=slackbridge.__main__:main"]},
    python_requires=">=3.8",
    classifiers=[
        "Framework :: Trio",
        "Topic :: System :: Networking",
        "Topic :: Communications :: Chat :: Internet Relay Chat",
        "Topic :: Communications",
    ],
)
