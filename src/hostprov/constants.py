"""Fixed values shared by the provisioning tasks."""

CREDENTIALS_DIR_MODE = 0o700
LOG_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
BANNER_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

FQDN_PLACEHOLDER = "{FQDNAME}"
HOSTNAME_PLACEHOLDER = "{HOSTNAME}"
AUTHPASS_PLACEHOLDER = "{AUTHPASS}"

DEFAULT_SHELL = "/bin/bash"
GENERATED_PASSWORD_LENGTH = 8
GENERATED_PASSWORD_ALPHABET = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789_"
)

# restic forget --prune schedule
RETENTION_POLICY = (
    ("--keep-daily", 7),
    ("--keep-weekly", 5),
    ("--keep-monthly", 12),
    ("--keep-yearly", 10),
)
SNAPSHOT_LISTING_LIMIT = 100
SNAPSHOT_LISTING_EDGE = 50

BACKUP_SUBDIRS = ("bash", "job", "log", "par")

R_KEYSERVER = "keyserver.ubuntu.com"
R_RECV_KEY = "E298A3A825C0D65DFD57CBB651716619E084DAB9"
R_REPOSITORY = "deb https://cloud.r-project.org/bin/linux/ubuntu bionic-cran35/"
CRAN_MIRROR = "https://cran.rstudio.com/"

DEFAULT_APT_PACKAGES = (
    "r-base",
    "r-base-core",
    "r-recommended",
    "python3-pip",
    "python3-numpy",
    "python3-pandas",
    "python3-dev",
    "pandoc",
    "gnuplot",
)

DEFAULT_R_PACKAGES = (
    "devtools",
    "remotes",
    "BiocManager",
    "doParallel",
    "e1071",
    "foreach",
    "gridExtra",
    "MASS",
    "plyr",
    "dplyr",
    "stringdist",
    "rmarkdown",
    "knitr",
    "tinytex",
    "openxlsx",
    "LaF",
    "reshape2",
    "data.table",
    "bit64",
    "tidyverse",
    "cowplot",
    "qqman",
    "svglite",
    "olsrr",
    "formatR",
    "pedigreemm",
    "xtable",
    "glmnet",
    "ISLR",
)

PIP3_PATH = "/usr/bin/pip3"
PIP3_PACKAGES = ("pandas", "numpy")

# Archive tools read from the curl input file: <PREFIX>_URL, <PREFIX>_ROOT, <PREFIX>_PATH
CURL_ARCHIVE_TOOLS = (
    ("JULIA", "julia"),
    ("JDK", "jdk"),
    ("GO", "go"),
)

RSTUDIO_SERVER_DEB_URL = "https://download2.rstudio.org/server/bionic/amd64/rstudio-server-1.2.5042-amd64.deb"
SHINY_SERVER_DEB_URL = "https://download3.rstudio.org/ubuntu-14.04/x86_64/shiny-server-1.5.13.944-amd64.deb"

UFW_ALLOWED = ("ssh", "443/tcp", "80/tcp")
