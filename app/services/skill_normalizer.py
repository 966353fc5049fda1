"""
Skill name normalization.

Static lookup table mapping spelling variants of skill tags to the canonical
name the back office stores. Matching is exact after trimming; anything not
in the table passes through unchanged.
"""

from collections.abc import Iterable

# canonical name -> variants
SKILL_NORMALIZATION_MAP: dict[str, list[str]] = {
    # Languages / .NET
    ".NET": [".Net"],
    "C#.NET": ["C#.net"],
    "VB.NET": ["VB.net"],
    "ASP.NET": ["ASP.Net"],
    # Cloud / infrastructure
    "AWS": ["AWSWAF"],
    "CI/CD": ["CICD"],
    "Active Directory": ["ActiveDirectory"],
    # Databases
    "MySQL": ["My SQL"],
    "PostgreSQL": ["Postgre SQL", "Postgres", "PostgresSQL"],
    "SQL Server": ["SQLSerer", "SQLServer"],
    "Oracle DB": ["OracleDB", "Oracle DataBase"],
    "PL/SQL": ["PL-SQL"],
    # Frameworks / libraries
    "CakePHP": ["Cake PHP"],
    "CodeIgniter": ["Codeigniter"],
    "Spring Boot": ["Spring boot", "SpringBoot", "Springboot"],
    "Next.js": ["Next", "NextJS"],
    "Nest.js": ["NestJS"],
    "React Native": ["ReactNative", "Reactnative"],
    # Tools
    "GitHub": ["Github", "github"],
    "GitHub Actions": ["Github Actions"],
    "GitLab": ["Gitlab"],
    "Git": ["git"],
    "Backlog": ["backlog"],
    "Confluence": ["confluence"],
    "Miro": ["miro"],
    "VS Code": ["VSCode"],
    "Visual Studio": ["VisualStudio"],
    "Android Studio": ["AndroidStudio"],
    "Excel VBA": ["ExcelVBA"],
    "Playwright": ["playwright"],
    # Design / video
    "After Effects": ["After effect", "AfterEffects"],
    "Premiere Pro": ["Premiere", "PremierePro", "PremierPro"],
    "DreamWeaver": ["Dreamweaver"],
    # Infrastructure / network
    "VMware": ["VMWare", "Vmware"],
    "Windows Server": ["WindowsServer", "Windowsサーバ", "Windowsサーバー"],
    "Windows OS": ["WindowsOS"],
    "Linux": ["linux"],
    "UNIX": ["Unix"],
    "AIX": ["Aix"],
    "RedHat": ["Redhat"],
    "Nginx": ["nginx"],
    # Security
    "Palo Alto": ["PaloAlto", "Paloalto", "PaloAltoNetworks"],
    "Prisma Access": ["PrismaAccess"],
    "Entra ID": ["EntraID", "Active Directory/Entra ID"],
    # AWS services
    "AWS Lambda": ["Lambda"],
    "AWS S3": ["S3"],
    "AWS RDS": ["RDS", "Amazon RDS"],
    "AWS CloudWatch": ["CloudWatch"],
    "AWS WAF": ["AWSWAF"],
    "Route 53": ["Route53"],
    "Step Functions": ["StepFunctions"],
    # GCP
    "Google Cloud": ["GoogleCloud", "GCP"],
    # Microsoft
    "Microsoft 365": ["Microsoft365", "M365"],
    "Power BI": ["PowerBI"],
    "SharePoint": ["Sharepoint"],
    # Other
    "JavaScript": ["Javascript", "JS"],
    "TypeScript": ["Typescript"],
    "Scala": ["scala"],
    "Java": ["JAVA", "java"],
    "SCSS": ["scss"],
    "HTML/CSS": ["HTML", "CSS", "HTML5", "CSS3"],
    "WordPress": ["Wordpress"],
    "Salesforce": ["SalesForce"],
    "Tableau": ["tableau"],
    "Terraform": ["terraform"],
    "Docker": ["docker"],
    "Kubernetes": ["K8s"],
    "SageMaker": ["Sagemaker"],
    "Splunk": ["SPLUNK"],
    "Zabbix": ["ZABBIX"],
    "Jenkins": ["JENKINS"],
    "Jira": ["JIRA"],
    "JUnit": ["Junit"],
    "Shell Script": [
        "ShellScript",
        "Shellscript",
        "SHELL",
        "Shell",
        "Shellスクリプト",
        "シェルスクリプト",
    ],
    "REST API": ["RestAPI", "RESTful API"],
    "Web": ["WEB", "Webシステム", "Webアプリケーション"],
    "Webディレクション": ["webディレクション"],
    "Windows": ["windows"],
    "Spring": ["spring"],
    "AJAX": ["Ajax"],
    "NET-COBOL": ["NetCOBOL"],
    "HULFT": ["Hulft"],
    "Intra-mart": ["Intramart", "intra-mart"],
}


def _build_reverse_map(table: dict[str, list[str]]) -> dict[str, str]:
    """variant -> canonical; a variant listed twice resolves to the later entry."""
    reverse: dict[str, str] = {}
    for canonical, variants in table.items():
        for variant in variants:
            reverse[variant] = canonical
    return reverse


REVERSE_MAP = _build_reverse_map(SKILL_NORMALIZATION_MAP)


def normalize(name: str) -> str:
    """Return the canonical spelling of a skill name."""
    trimmed = name.strip()
    return REVERSE_MAP.get(trimmed, trimmed)


def normalize_all(names: Iterable[str]) -> list[str]:
    """Normalize skill names, dropping blanks and duplicates (first occurrence wins)."""
    normalized = (normalize(name) for name in names if name and name.strip())
    return list(dict.fromkeys(normalized))
