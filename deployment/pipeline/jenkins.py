"""Jenkins JSON API client and the pipeline job definition."""
import logging
from typing import Optional
from xml.sax.saxutils import escape

import requests

logger = logging.getLogger(__name__)

JOB_CONFIG_TEMPLATE = """<?xml version='1.1' encoding='UTF-8'?>
<flow-definition plugin="workflow-job@2.40">
  <actions/>
  <description>Laravel CI/CD Pipeline with GitHub Webhook</description>
  <keepDependencies>false</keepDependencies>
  <properties>
    <org.jenkinsci.plugins.workflow.job.properties.PipelineTriggersJobProperty>
      <triggers>
        <com.cloudbees.jenkins.GitHubPushTrigger plugin="github@1.34.1">
          <spec></spec>
        </com.cloudbees.jenkins.GitHubPushTrigger>
      </triggers>
    </org.jenkinsci.plugins.workflow.job.properties.PipelineTriggersJobProperty>
    <hudson.model.ParametersDefinitionProperty>
      <parameterDefinitions>
        <hudson.model.ChoiceParameterDefinition>
          <name>ENVIRONMENT</name>
          <description>Deployment environment</description>
          <choices class="java.util.Arrays$ArrayList">
            <a class="string-array">
              <string>staging</string>
              <string>production</string>
            </a>
          </choices>
        </hudson.model.ChoiceParameterDefinition>
        <hudson.model.BooleanParameterDefinition>
          <name>RUN_TESTS</name>
          <description>Run tests before deployment</description>
          <defaultValue>true</defaultValue>
        </hudson.model.BooleanParameterDefinition>
        <hudson.model.BooleanParameterDefinition>
          <name>RUN_MIGRATIONS</name>
          <description>Run database migrations</description>
          <defaultValue>true</defaultValue>
        </hudson.model.BooleanParameterDefinition>
        <hudson.model.BooleanParameterDefinition>
          <name>SKIP_BUILD</name>
          <description>Skip Docker build (use existing image)</description>
          <defaultValue>false</defaultValue>
        </hudson.model.BooleanParameterDefinition>
      </parameterDefinitions>
    </hudson.model.ParametersDefinitionProperty>
  </properties>
  <definition class="org.jenkinsci.plugins.workflow.cps.CpsScmFlowDefinition" plugin="workflow-cps@2.87">
    <scm class="hudson.plugins.git.GitSCM" plugin="git@4.8.2">
      <configVersion>2</configVersion>
      <userRemoteConfigs>
        <hudson.plugins.git.UserRemoteConfig>
          <url>https://github.com/{repo}.git</url>
          <credentialsId>github-credentials</credentialsId>
        </hudson.plugins.git.UserRemoteConfig>
      </userRemoteConfigs>
      <branches>
        <hudson.plugins.git.BranchSpec>
          <name>*/main</name>
        </hudson.plugins.git.BranchSpec>
        <hudson.plugins.git.BranchSpec>
          <name>*/develop</name>
        </hudson.plugins.git.BranchSpec>
      </branches>
      <doGenerateSubmoduleConfigurations>false</doGenerateSubmoduleConfigurations>
      <submoduleCfg class="list"/>
      <extensions/>
    </scm>
    <scriptPath>{script_path}</scriptPath>
    <lightweight>true</lightweight>
  </definition>
  <triggers/>
  <disabled>false</disabled>
</flow-definition>
"""


def job_config_xml(github_repo: str, script_path: str = "Jenkinsfile") -> str:
    """Pipeline job XML with the ENVIRONMENT/RUN_TESTS/RUN_MIGRATIONS/SKIP_BUILD parameters."""
    return (
        JOB_CONFIG_TEMPLATE
        .replace("{repo}", escape(github_repo))
        .replace("{script_path}", escape(script_path))
    )


class JenkinsClient:
    """Thin wrapper over the Jenkins JSON API for one pipeline job."""

    def __init__(self, base_url: str, job: str, user: Optional[str] = None,
                 token: Optional[str] = None, session: Optional[requests.Session] = None,
                 timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.job = job
        self.timeout = timeout
        self.session = session or requests.Session()
        if user and token:
            self.session.auth = (user, token)

    def job_url(self, build_number: Optional[int] = None) -> str:
        url = f"{self.base_url}/job/{self.job}"
        if build_number is not None:
            url = f"{url}/{build_number}"
        return f"{url}/"

    def _get_json(self, path: str) -> Optional[dict]:
        try:
            response = self.session.get(f"{self.base_url}{path}", timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.debug(f"Jenkins request {path} failed: {e}")
            return None

    def build_result(self, build_number: int) -> str:
        """SUCCESS/FAILURE/ABORTED/..., BUILDING while running, UNKNOWN when unreachable."""
        data = self._get_json(f"/job/{self.job}/{build_number}/api/json")
        if data is None:
            return "UNKNOWN"
        return data.get("result") or "BUILDING"

    def current_stage(self, build_number: int) -> str:
        """Name of the stage in progress, per the pipeline workflow API."""
        data = self._get_json(f"/job/{self.job}/{build_number}/wfapi/describe")
        if data is None:
            return "Unknown"
        for stage in data.get("stages", []):
            if stage.get("status") == "IN_PROGRESS":
                return stage.get("name", "Unknown")
        return "None"

    def last_build_number(self) -> Optional[int]:
        data = self._get_json(f"/job/{self.job}/api/json")
        if not data or not data.get("lastBuild"):
            return None
        return data["lastBuild"].get("number")

    def is_reachable(self) -> bool:
        """Jenkins answers 200, or 403 when anonymous read is disabled."""
        try:
            response = self.session.get(self.base_url, timeout=self.timeout)
        except requests.RequestException:
            return False
        return response.status_code in (200, 403)

    def create_job(self, name: str, config_xml: str) -> bool:
        """Create a job from its XML config. Returns False when Jenkins refuses."""
        try:
            response = self.session.post(
                f"{self.base_url}/createItem",
                params={"name": name},
                data=config_xml.encode("utf-8"),
                headers={"Content-Type": "application/xml"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"⚠️ Failed to create Jenkins job via API: {e}")
            return False

        if response.status_code >= 400:
            logger.warning(f"⚠️ Failed to create Jenkins job via API: HTTP {response.status_code}")
            return False

        logger.info(f"✅ Jenkins job {name} created")
        return True
